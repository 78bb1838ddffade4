"""Helpers for propagating KeyboardInterrupt out of broad exception handlers.

Build actions wrap collaborator calls in ``except Exception`` blocks to turn
failures into domain errors. A Ctrl-C must never be converted that way, so
every such block routes ``KeyboardInterrupt`` through this module first.
"""

import _thread


def handle_keyboard_interrupt_properly(ke: KeyboardInterrupt) -> None:
    """Signal the main thread and re-raise the interrupt.

    Usage:
        try:
            run_recipe()
        except KeyboardInterrupt as ke:
            handle_keyboard_interrupt_properly(ke)
        except Exception as e:
            raise StageError(...) from e

    Args:
        ke: The interrupt that was caught

    Raises:
        KeyboardInterrupt: Always
    """
    _thread.interrupt_main()
    raise ke
