"""Core (UI-agnostic) tracker dashboard logic.

This package contains:
- sheet reading (gviz JSON -> records -> pandas)
- the write client for the Apps Script endpoint
- the snapshot store and the sync coordinator
- view compute functions (JSON-serializable payloads)
"""
