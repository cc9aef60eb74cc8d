"""
core: 单次回测共享的世界模型（类型 / 状态 / 事件 / 价格与时间工具）
"""
