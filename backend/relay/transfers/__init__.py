"""Ephemeral transfer module for Photo Relay.

Handles the lifecycle of relayed files: a phone uploads an image, a PC
downloads it once, and the file is gone. Every stored file is deleted by
exactly one of:

- its TTL timer firing
- a completed download
- an explicit clear of all files
- the periodic backstop sweep (by file mtime)

Nothing survives a restart; the registry lives in memory only.
"""
