"""Core domain package for intergram.

Core contains classification, deduplication and the delivery queue without
any Intercom, Telegram or storage-specific code, keeping the business logic
portable.
"""
