from phoneauth.main import run

run()
