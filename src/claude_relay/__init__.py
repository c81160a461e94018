"""claude-relay - local web relay for the Claude command-line assistant"""

__version__ = "0.1.0"
