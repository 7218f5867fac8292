"""
Kernel layer: persistence models, audit log and caller identity.

Engines depend on the kernel; the kernel never imports from engines.
"""
