from statusbridge.cli import main

main()
