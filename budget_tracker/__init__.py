"""
Budget Tracker - Source Package

A personal finance tracker: users sign in, record income and expense
transactions, and see their balance and savings by category.

DESIGN PRINCIPLES:
1. The hosted backend owns identity and storage
2. Validate before any network call
3. Gateway operations report failures, they never raise
4. Business logic never touches the page
5. Backend is swappable
"""

__version__ = "1.0.0"
__author__ = "Budget Tracker Team"
