import sys

from tensor_id.experiments import main

if __name__ == "__main__":
    main(sys.argv[1:])
