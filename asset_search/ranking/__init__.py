"""Search ranking and result fusion components.

Contents
- ``fusion``: reciprocal rank fusion and min-max score normalization
"""
