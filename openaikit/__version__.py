__title__ = "openaikit"
__version__ = "1.0.0"
