"""Test package for Synapse Studio.

Core modules are tested against a fake clock; the pygame front end is
exercised headlessly through SDL's dummy video driver. Run ``pytest`` from the
project root.
"""
