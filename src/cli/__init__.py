"""Command-line tools for CourseForge.

- ``python -m src.cli.ingest`` chunks, scores and indexes course documents
  outside the web server (``file``, ``quality`` and ``delete``).
"""
