"""
酒店模块核心
房间 / 预订 / 客房清洁生命周期引擎及经营报表
"""
__version__ = "1.0.0"
