"""
Message classification and bounded history.
"""
