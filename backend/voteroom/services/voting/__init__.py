"""Voting domain services: state machine, locking, timers and fan-out.

This package holds the session core used by the Socket.IO handlers and the
REST blueprint, keeping transport concerns separated from the session
state machine.
"""
