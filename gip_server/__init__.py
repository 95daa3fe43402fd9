"""
GIP Server module.

The HTTP control plane: project registration, synchronous builds, artifact
downloads and the agent registry API.
"""
