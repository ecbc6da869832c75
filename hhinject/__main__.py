from hhinject.cli import main

main()
