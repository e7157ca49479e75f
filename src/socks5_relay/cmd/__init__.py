"""Command line interface modules.

This package provides the command-line entry point for starting the proxy
server, loading its configuration and setting up logging.
"""
