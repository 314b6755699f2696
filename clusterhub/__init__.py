"""
ClusterHub - cluster definition registry for remote Hadoop monitoring.
"""

__version__ = "1.0.0"
