"""
Command handlers.

Each handler is `async def handler(ctx: CommandContext) -> int` and returns
the process exit code. Handlers never install signal handlers or tear down
resources themselves; the lifecycle controller owns both.
"""
