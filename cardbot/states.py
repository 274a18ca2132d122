"""Состояния FSM для сценария регистрации клиента."""

from aiogram.fsm.state import State, StatesGroup

from cardbot.dialog import DialogStep


class RegistrationStates(StatesGroup):
    """Шаги диалога регистрации, на которых бот ждёт ввода оператора."""

    waiting_for_first_name = State()
    waiting_for_last_name = State()
    waiting_for_promo_code = State()
    waiting_for_birthdate = State()


STEP_STATES = {
    DialogStep.AWAIT_FIRST_NAME: RegistrationStates.waiting_for_first_name,
    DialogStep.AWAIT_LAST_NAME: RegistrationStates.waiting_for_last_name,
    DialogStep.AWAIT_PROMO_CODE: RegistrationStates.waiting_for_promo_code,
    DialogStep.AWAIT_BIRTH_DATE: RegistrationStates.waiting_for_birthdate,
}
