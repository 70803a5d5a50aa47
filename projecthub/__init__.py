"""projecthub - backend for student project boards"""

__version__ = "1.0.0"
