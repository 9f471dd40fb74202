"""
Generators — resolve the driver config and render test-config.yaml.

``driver_config`` derives what the driver advertises; ``render`` turns
the result into the file the e2e storage testsuite reads.
"""
