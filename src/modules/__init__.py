"""
Questline feature modules.

- progression: XP/level arithmetic, registration and progress reads
- quests: quest boards and the exactly-once completion protocol
- shared: base service and domain exceptions
"""
