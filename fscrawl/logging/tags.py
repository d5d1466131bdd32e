# fscrawl/logging/tags.py
"""Tag prefixes used in log messages, one per subsystem."""

CRAWLER = "[CRAWLER]"
SCAN = "[SCAN]"
PIPELINE = "[PIPELINE]"
CONDITION = "[CONDITION]"
CLIENT = "[CLIENT]"
BULK = "[BULK]"
STATE = "[STATE]"
CONFIG = "[CONFIG]"
CLI = "[CLI]"
