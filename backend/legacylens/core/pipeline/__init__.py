"""
Scan pipeline: state, phases, orchestration and the scan service

Import from the submodules directly; analyzers and enrichers import
``pipeline.state``, so this package keeps no eager imports.
"""
