"""Console demo of the Echo session core.

Type a message and press Enter to send it, ``/voice`` toggles voice capture,
``/quit`` exits.
"""

import asyncio

from echo_core.api.service import get_default_session
from echo_core.domain.exceptions import BusinessError
from echo_core.domain.states import RequestPhase


async def main() -> None:
    session = get_default_session()
    for m in session.history:
        print(f"{m.role}: {m.content}")
    while True:
        line = await asyncio.to_thread(input, "> ")
        if line.strip() == "/quit":
            break
        try:
            if line.strip() == "/voice":
                state = session.toggle_voice()
                print(f"[voice] {state.value}")
                continue
            outcome = await session.submit_text(line)
        except BusinessError as e:
            print(f"[error] {e.message}")
            continue
        if outcome is None:
            continue
        if outcome.phase is RequestPhase.SUCCEEDED:
            print(f"assistant: {outcome.message.content}")
        else:
            print(f"[error] {outcome.reason}: {outcome.error.message}")
            session.dismiss_error()


if __name__ == "__main__":
    asyncio.run(main())
