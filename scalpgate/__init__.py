"""ScalpGate – señales de scalping en opciones con validación por gates."""
__version__ = "1.0.0"
