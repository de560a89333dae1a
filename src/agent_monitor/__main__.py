import asyncio
import contextlib
import signal

from dotenv import load_dotenv
from loguru import logger

from agent_monitor.app_config import load_json_config, parse_app_config, resolve_runtime_env
from agent_monitor.bootstrap import bootstrap_runtime
from agent_monitor.logging_config import setup_logging


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    runtime = await bootstrap_runtime(app, env)
    await runtime.start()

    print("agent-monitor (Ctrl+C to stop)")
    print(f"Socket: {runtime.server.socket_path}")
    if runtime.watch_interrupts:
        print(f"Watching Claude logs under: {app.claude_projects_dir}")
    if runtime.cursor_client is not None:
        print(f"Cursor usage API: {app.cursor_api_base_url}")
    if log_descriptions:
        print(f"Logging: {', '.join(log_descriptions)}")
    print()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        await stop.wait()
    finally:
        logger.info("Shutting down")
        await runtime.close()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
