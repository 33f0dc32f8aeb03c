"""FSM states for bot."""

from aiogram.fsm.state import State, StatesGroup


class HairStates(StatesGroup):
    """States for the hairstyle try-on flow."""

    AWAIT_FACE = State()  # Waiting for a selfie
    AWAIT_STYLE = State()  # Waiting for hairstyle (text, quick reply or reference request)
    AWAIT_MODEL_IMAGE = State()  # Waiting for a hairstyle reference photo
    AWAIT_COLOR = State()  # Waiting for hair color, then generation runs
