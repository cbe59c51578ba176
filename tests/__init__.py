"""
Test suite for the Prompt Shelf.

This package contains tests for all core functionality including:
- CSV codec round-tripping and tolerant decoding
- Record store validation, editing and import merging
- Classification index and two-level filter engine
- Session orchestration, storage and quick capture
- The command-line interface
"""
