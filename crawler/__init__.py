"""
App Store crawling: lookup client, listing fetcher and history extraction.
"""
