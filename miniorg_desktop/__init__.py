"""
MiniOrg desktop core.

Native services behind the MiniOrg desktop shell: OAuth redirect capture,
credential storage and background calendar sync.
"""

__version__ = "0.1.0"
