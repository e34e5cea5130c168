"""Synchronization engine: diffing, snapshot cache, run orchestration and progress events."""
