"""
Import Hub application package.
"""
