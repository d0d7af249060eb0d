"""FastAPI surface that republishes cached probe snapshots as JSON, text, Markdown and Prometheus."""
