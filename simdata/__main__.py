from simdata.cli import run

run()
