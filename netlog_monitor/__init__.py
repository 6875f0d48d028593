"""
Network Log Monitor

Follows a router's dnsmasq log to track the devices on the network and the
hostnames each of them resolves.
"""

__version__ = '1.0.0'
