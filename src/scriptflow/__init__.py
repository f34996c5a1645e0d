"""
scriptflow: Interactive Runner for Annotated Shell Scripts

Discovers shell scripts that describe themselves through structured comment
annotations, orders them by their declared dependencies, asks for any missing
arguments and options (remembering the answers), and runs them one after
another with their output tagged and colored.
"""

__version__ = "1.0.0"
__author__ = "scriptflow Team"
__description__ = "Interactive runner for annotated shell scripts"
