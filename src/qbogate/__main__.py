from qbogate.cli import main

main()
