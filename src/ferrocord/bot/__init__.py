"""
Discord cogs that connect the py-cord gateway client to the dispatch pipeline.
"""
