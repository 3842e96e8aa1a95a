"""
ShelfSync HTTP API routers
"""
