"""
Core functionality for the Prompt Shelf.

This package contains the logic for:
- Reading and writing the prompt CSV file
- Validating and editing prompt records
- Deriving the Group -> Subgroup hierarchy
- Filtering records and keeping the two selectors consistent
- Configuration and debug logging
"""
