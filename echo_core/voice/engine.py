"""语音识别引擎抽象接口。

引擎在一次采集（episode）中最多回调一次 on_final_transcript 或 on_aborted，
回调在事件循环线程中触发。引擎可能完全不可用，available 为 False。
"""

from typing import Protocol


class VoiceEngineListener(Protocol):
    def on_final_transcript(self, text: str) -> None:
        ...

    def on_aborted(self) -> None:
        ...


class VoiceEngine(Protocol):
    available: bool

    def start(self, listener: VoiceEngineListener) -> None:
        """开始一次采集；无法获取麦克风等资源时抛出异常。"""
        ...

    def stop(self) -> None:
        """请求提前结束采集，结果仍通过 listener 异步送达。"""
        ...
