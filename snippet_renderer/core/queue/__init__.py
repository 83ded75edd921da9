"""
Queue Module
===========

Components:
- job: Render job state machine
- scheduler: Strict FIFO, one-at-a-time job execution
"""
