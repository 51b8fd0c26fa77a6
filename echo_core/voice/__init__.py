"""语音输入：引擎协议 (engine) 与采集状态机 (capture)。"""
