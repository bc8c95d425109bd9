# spritr/qt.py
from PySide6 import QtCore

__all__ = ["QtCore"]
