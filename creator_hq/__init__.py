"""Creator HQ booking backend"""
