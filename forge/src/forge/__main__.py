from .worker_main import run

run()
