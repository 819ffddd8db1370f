"""
Run the CLI as a module: ``python -m consul_operator run ...``.
"""
from consul_operator import cli

if __name__ == '__main__':
    cli.main()
