# fscrawl/core/__init__.py
