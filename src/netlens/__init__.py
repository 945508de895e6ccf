"""
NetLens - Multi-vendor network log and configuration analyzer.

Turns captured device output (running configs, show commands, syslog,
RouterOS exports) from Huawei, Cisco, Juniper and MikroTik equipment into
one canonical record per file, scores each record against a library of
anomaly rules, and infers a topology graph across every analyzed device.
"""

__version__ = "0.1.0"
