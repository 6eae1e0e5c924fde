from teamboard.cli.main import main

main()
