"""
Shared utilities: logging, URL helpers, deadlines, robots.txt handling and
sync wrappers for the async pipeline.
"""
