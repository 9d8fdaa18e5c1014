from tablekv.cli import run

run()
