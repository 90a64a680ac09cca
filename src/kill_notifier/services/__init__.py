"""
Kill notifier services.
"""
