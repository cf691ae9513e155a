"""
Utility modules for treetop.

Modules:
    - config: Watch-list file parsing
    - diaglog: Diagnostic log file and console echo
"""
