# fscrawl/pipeline/filters/__init__.py
