"""
Infrastructure layer for sshfleet.

Configuration loading, logging, SSH clients and the tunnel services built on
top of them.
"""
