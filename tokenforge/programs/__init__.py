"""
Builtin programs: system, token, associated token, and token metadata
"""
