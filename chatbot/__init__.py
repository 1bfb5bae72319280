"""
HTTP surface for the chat widget.
"""
