"""
Utility Modules for readtext-ms.

    - timeit.py: Performance measurement utilities
"""
