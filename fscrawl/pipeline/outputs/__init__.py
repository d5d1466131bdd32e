# fscrawl/pipeline/outputs/__init__.py
