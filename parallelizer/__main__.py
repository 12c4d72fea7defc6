from parallelizer.cli import main

main()
