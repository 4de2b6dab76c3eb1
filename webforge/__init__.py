"""
WebForge: prompt, screenshot and reference-URL driven web project generation.

Orchestrates spec extraction, file generation, package policy enforcement,
quality validation and a sandboxed build check behind a bounded repair loop
and a hard cost cap, streaming progress as newline-delimited JSON.
"""

__version__ = "1.0.0"
__author__ = "WebForge Team"
