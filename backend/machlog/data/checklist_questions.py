# Базовый набор вопросов осмотра техники перед сменой.
# Заливается в checklist_questions при первом запуске, если таблица пуста.

DEFAULT_QUESTIONS = [
    {"category": "Двигатель", "question": "Уровень моторного масла в норме?"},
    {"category": "Двигатель", "question": "Нет подтёков масла и охлаждающей жидкости?"},
    {"category": "Гидравлика", "question": "Шланги и соединения без повреждений и течей?"},
    {"category": "Гидравлика", "question": "Уровень гидравлической жидкости в норме?"},
    {"category": "Ходовая часть", "question": "Шины/гусеницы без видимых повреждений?"},
    {"category": "Безопасность", "question": "Звуковой сигнал и сигнал заднего хода работают?"},
    {"category": "Безопасность", "question": "Огнетушитель на месте и не просрочен?"},
    {"category": "Кабина", "question": "Стёкла и зеркала целы, обзор не ограничен?"},
]
