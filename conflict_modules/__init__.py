"""
Conflict modules: the case types handled by the dispute engine.

Each module is a thin layer over the kernel (models, ORM, workflow
definition, selectors, service).  Modules never import each other.
"""
