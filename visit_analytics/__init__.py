"""
Visit analytics engine: page views and HyperLogLog-estimated unique visitors
per calendar day, with a Redis hot tier reconciled into a SQL store.
"""

__version__ = "1.0.0"
