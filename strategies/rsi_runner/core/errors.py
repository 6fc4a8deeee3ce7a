class RunnerError(Exception):
    """RSI runner 异常基类。"""


class InvalidSizing(RunnerError, ValueError):
    """名义金额或价格非正：配置/编程错误，调用点直接失败。"""


class SubmissionError(RunnerError):
    """下单失败（HTTP 错误、交易所拒绝、响应不可解析）。"""


class InstrumentNotFound(RunnerError):
    """交易对不在 instrument 列表中。"""
