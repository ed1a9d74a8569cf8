"""HTTP surface for the focusloop engine (FastAPI)."""
