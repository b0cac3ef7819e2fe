"""drvinst - 厂商驱动包安装器"""

__version__ = "0.3.0"
